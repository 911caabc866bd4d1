"""Config-driven marker scoring entrypoints."""


def run_marker_pipeline(*args, **kwargs):
    from ambientmarkers.pipeline.run import run_marker_pipeline as _run_marker_pipeline

    return _run_marker_pipeline(*args, **kwargs)


__all__ = ["run_marker_pipeline"]
