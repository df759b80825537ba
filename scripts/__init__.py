"""
Scripts Package.

Operational scripts for the risk engine.

Scripts:
- bootstrap_db: Create the assessment tables
- run_dashboard: Serve the REST API with uvicorn
- score_cohort: Score a cohort file from the command line
"""
