"""Chat backend: accounts, presence and private messages over flat JSON files."""
