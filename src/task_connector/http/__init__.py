"""HTTP plumbing shared by the task fetcher and the response reporter."""
