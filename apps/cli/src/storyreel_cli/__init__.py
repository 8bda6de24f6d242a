"""StoryReel command line interface."""
