"""
capexec framework - logging and enumeration sources shared by the engine and adapters.
"""
