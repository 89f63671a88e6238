"""Demo agents for the interactive CLI (triage → operations / support)."""
