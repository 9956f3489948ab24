"""hwsampler command-line application."""
