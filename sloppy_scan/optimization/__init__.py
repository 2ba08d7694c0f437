"""Token budgeting, compression and chunk assembly."""
