"""
Campaign Forge - synthetic attack campaigns and event correlation.

This package builds multi-stage attack campaigns for detection engineering
and SOC training, including:

- Campaign templates for APT, ransomware, insider and supply-chain intrusions
- Network topology and lateral movement modelling
- Log synthesis through a pluggable content-filling collaborator
- Probabilistic detection simulation
- Rule-based event correlation with confidence scoring
- Timeline assembly and analyst investigation guides

References:
    - MITRE ATT&CK Enterprise Matrix
    - Elastic Common Schema (ECS)
    - Splunk Attack Range
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
