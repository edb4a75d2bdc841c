from weather_dashboard.cli import main

main()
