"""CI/CD pipeline self-tests, the Jenkins client and the webhook simulator."""
