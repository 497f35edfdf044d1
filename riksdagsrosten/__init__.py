"""Relational store for Riksdag members, documents and votes."""
