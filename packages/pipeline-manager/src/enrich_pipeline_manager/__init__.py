"""Pipeline Manager: the orchestrator state machine and its Temporal workflow.

- Orchestrator: SelectStep → Fetching → Dispatching → Done (plus the
  NoDestination, PipelineComplete and Error exits)
- OrchestrateWorkflow: runs the Orchestrator with Config Access, Data Access
  and Dispatch Engine activities as its operations
"""
