"""HTTP routers. Which ones are mounted depends on the serving organization."""
