"""
Tests for the Decision Pipeline.

This package contains tests for:
- Candidate context and configuration
- Guardrail chain and sample rules
- Scoring and banding
- Idempotency keys
- Cooloff windows
- PSI drift monitoring
- Decision store
- Policy orchestrator
"""
