"""revgate core: change assembly, pre-flight checks, review jobs, and enforcement."""
