"""Routinely API: routines, habits, behaviors and the reward points ledger."""
