"""
Controller Modules

Thin orchestration layer over the pure engines:
- reporting: income statement, balance sheet, variance and coverage reports
- budget: overlay assembly, rule-based generation and applying projections
"""
