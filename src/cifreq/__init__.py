"""
cifreq - stop service frequency from CIF timetables.

Pipeline stages:
- records/   : fixed-width line decoding (ATCO-CIF and rail CIF)
- resolve/   : raw location identifier -> canonical stop/station code
- aggregate/ : journey reconstruction and hourly departure counts
- criteria/  : frequency criteria and review flagging
"""

__version__ = "0.1.0"
