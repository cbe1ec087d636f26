"""Pin activity (endorse, renew, downvote) and periodic maintenance."""
