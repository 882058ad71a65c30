"""voicetracks: per-speaker capture of live voice sessions into time-aligned tracks."""
