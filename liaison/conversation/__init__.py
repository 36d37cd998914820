"""Conversation records and the transactional store that holds them."""
