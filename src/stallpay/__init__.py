"""Checkout and Lightning payment orchestration for Nostr marketplace stalls."""
