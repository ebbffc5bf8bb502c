# amcacher: Amcache file and program entry exporter for DFIR triage.

__version__ = "0.1.0"
