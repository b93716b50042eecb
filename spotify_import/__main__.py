from spotify_import.import_service import main


if __name__ == '__main__':
    main()
