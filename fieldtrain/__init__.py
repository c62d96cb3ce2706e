"""
Fieldtrain: Academic Field-Training Management Platform

Manages training courses, capacity-bounded training groups, student
registrations and transfers between groups, and supervisor evaluations
for admin, supervisor and student roles.
"""

__version__ = "1.0.0"
__author__ = "Fieldtrain Development Team"
__description__ = "Academic field-training assignment and capacity manager"
