"""factgraph command line interface."""
