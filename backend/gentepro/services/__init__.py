# Shared outbound services
