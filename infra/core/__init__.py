"""Shared configuration, naming and construct helpers for the CDK app."""
