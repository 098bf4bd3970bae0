"""Domain layer: entities, matching algorithms, quota math and the transfer state machine."""
