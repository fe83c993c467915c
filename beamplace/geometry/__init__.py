"""Angle math, optical output directions and beam collision tests."""
