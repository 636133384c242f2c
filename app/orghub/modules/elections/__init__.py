"""Elections: lifecycle, candidates, ballots and results."""
