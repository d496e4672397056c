"""Core engine: mission event deck, incursion alerts, safehouse defense, crew relationships and storylines."""
