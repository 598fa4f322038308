"""CraftMessage server: stores player messages submitted from the game."""
