"""Prefect flows around the analyser."""
