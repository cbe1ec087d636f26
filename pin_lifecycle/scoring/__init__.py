"""
Scoring engine: time-decayed relevance scores for pins.

Modules
-------
decay  : decay() + get_event_weight() + compute_score(), the primitive.
engine : calculate_pin_score() / update_pin_score() + percentile ranking,
         score insights, forecasting and advisory recommendations.
"""
