"""Exploratory analyses of Seattle bike traffic and the COVID-19 paper corpus."""

__version__ = "0.1.0"
