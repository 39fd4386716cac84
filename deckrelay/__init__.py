"""deckrelay - turn a chat answer from Open WebUI into a Presenton slide deck"""

__version__ = "0.3.0"
