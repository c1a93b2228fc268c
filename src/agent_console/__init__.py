"""Agent Console: incremental sync of agent hub sessions, transcripts and action streams."""
