"""Heuristic multi-agent page retrieval with bot-challenge detection."""
