"""Command line tool for running hnc-pipeline tasks."""
