"""TrackLinker: move playlists between music catalogs."""

__version__ = "0.3.0"
