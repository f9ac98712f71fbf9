"""
Application Layer

Ports to external collaborators and the services that drive playback:
- interfaces/: Track resolver, audio pipe, and voice transport contracts
- services/: Guild session state machine and the session registry
"""
