"""Matrix arithmetic on rectangular numeric grids."""
