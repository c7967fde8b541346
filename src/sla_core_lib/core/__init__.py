"""Core analysis logic: preprocessing, statistics, categorization, prompts and forensics."""
