"""vmmap-collector: periodic virtual memory map snapshots of a macOS process."""
