"""Orders Domain - checkout and admin order management"""
