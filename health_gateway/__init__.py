"""Health Tracker Gateway - HTTP front door for the personal health-tracking service.

The gateway standardizes cross-request behavior around the domain handler
groups (users, glucose, activities, insulin, food):

Architecture Overview:
- **API Layer**: FastAPI application, the ordered request pipeline and the
  error boundary
- **Core Layer**: Configuration, logging, exceptions and shared utilities
- **Infrastructure Layer**: The persistent store handle shared by handlers
- **Lifecycle**: Listener binding, signal-driven shutdown and exit codes

Domain business logic lives outside this package; handler groups are plugged
into the route registry at startup.
"""
