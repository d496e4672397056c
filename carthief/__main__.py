"""Entry point for ``python -m carthief <command>``.

Commands:
    doctor      – validate the static event tables
    deck        – build a mission event deck and print it as JSON
    incursions  – list safehouse incursion alerts for a facility set / heat tier
    storylines  – list crew loyalty storyline missions for a crew member
"""
from carthief.cli import main

if __name__ == "__main__":
    main()
