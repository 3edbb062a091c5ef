"""Telemedicine FAQ knowledge retrieval and knowledge gap tracking service."""
