"""
TaskDeck — Entry Point.

Single entry point: `python main.py` starts the reminder worker.
"""

from taskdeck.app import main

if __name__ == "__main__":
    main()
