"""Webhook delivery service for the presentation designer."""
