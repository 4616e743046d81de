"""Competitive bidding on harvestable crop lots."""
