"""Extension hook bus — named filter and action points for collaborators."""
