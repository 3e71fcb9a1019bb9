"""Scoring and leaderboard engine for team fitness leagues."""
