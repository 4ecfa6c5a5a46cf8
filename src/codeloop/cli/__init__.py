"""Command line front-end for codeloop."""
