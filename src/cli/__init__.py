"""learnloop command-line interface."""
