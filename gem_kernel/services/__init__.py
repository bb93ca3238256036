"""Kernel services: allocation, authorization gate, activity logging, workflows."""
