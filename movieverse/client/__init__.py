"""Client-side favorites: identity, matching, local cache, remote client and reconciliation."""
