"""StaffPlan platform concerns: settings and structured logging."""
