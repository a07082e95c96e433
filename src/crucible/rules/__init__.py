"""Rule catalog and per-run rule configuration."""
