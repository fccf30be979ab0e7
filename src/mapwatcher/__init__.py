"""mapwatcher — watch a process's memory mappings change over time.

Sample ``/proc/<pid>/smaps`` at a fixed interval, parse each sample into
a snapshot, and report which mappings appeared, disappeared, or changed
between consecutive samples.
"""

__version__ = "0.1.0"
