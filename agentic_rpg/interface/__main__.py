# ABOUTME: Entry point for launching the player CLI.
# ABOUTME: Run with: python -m agentic_rpg.interface [session_id]

from agentic_rpg.interface.cli import main

if __name__ == "__main__":
    main()
