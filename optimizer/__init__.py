"""Optimization engine used by timetable generation."""

from .annealing import AnnealConfig, AnnealResult, anneal

__all__ = ["AnnealConfig", "AnnealResult", "anneal"]
