from collections import namedtuple

Stage = namedtuple('Stage', ['progress', 'label'])

# Ordered pipeline checkpoints; progress targets are strictly increasing.
STAGES = (
    Stage(20, 'Parsing network packets'),
    Stage(40, 'Extracting features'),
    Stage(60, 'Running rule-based detection'),
    Stage(80, 'Applying ML anomaly detection'),
    Stage(90, 'Generating trust scores'),
    Stage(100, 'Analysis complete'),
)


def validate_stages(stages):
    """Check that stage targets are strictly increasing and end at 100."""
    if not stages:
        raise ValueError("At least one stage is required")
    previous = 0
    for stage in stages:
        if stage.progress <= previous or stage.progress > 100:
            raise ValueError(f"Invalid stage progress {stage.progress} after {previous}")
        previous = stage.progress
    if previous != 100:
        raise ValueError("The final stage must reach 100% progress")
    return tuple(stages)


def stage_for_progress(progress, stages=STAGES):
    """Return the stage an analysis at ``progress`` is currently working on."""
    progress = progress or 0
    for stage in stages:
        if progress <= stage.progress:
            return stage
    return stages[-1]
