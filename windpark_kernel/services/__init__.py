"""Kernel services: sequence counters, number allocation, audit sinks."""
