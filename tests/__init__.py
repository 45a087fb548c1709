"""Test package for the Ginger Go/No-Go task runner.

Core tests drive the engine with a fake clock and recording collaborators, so
timing is simulated rather than slept. The pygame tests use the SDL dummy
video driver to avoid opening real windows. Run ``pytest`` from the project
root.
"""
