"""Request pipeline: classification, dispatch, assembly, formatting and timing."""
