"""Market data, mesh and payoff building blocks."""
