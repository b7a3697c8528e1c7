"""REST API for learnloop."""
