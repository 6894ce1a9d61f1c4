"""Local state and record handling: the ID allocator, atomic JSON files, EntryLog records."""
