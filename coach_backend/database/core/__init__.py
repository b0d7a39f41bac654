"""
Core layer: error taxonomy, the conversation turn lifecycle, snapshot
upgrades and the public service operations built on the DAOs.
"""
