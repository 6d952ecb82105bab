"""LiftingTracker Pro backend."""
